"""Tests for the rank fusion library.

One module per component: normalization, conflation, the fusion engine, the
ranker, the end-to-end pipeline, the CLI and the shared config/logging/metrics
utilities.
"""
