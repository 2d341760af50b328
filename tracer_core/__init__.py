"""Disc-light tracer core.

Signed distance field, sphere-tracing ray marcher, jittered per-pixel
sampler and frame synthesis for the 2-D disc-light scene, plus the
YAML configuration loader.
"""
