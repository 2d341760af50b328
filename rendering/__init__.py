"""Rendering orchestration.

Row-band parallel scheduler over a shared frame buffer, sequential
render path, and persistence of rendered frames.
"""
