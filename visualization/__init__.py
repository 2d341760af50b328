"""Image output for rendered frames."""
