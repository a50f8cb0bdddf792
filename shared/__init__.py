"""Shared support code for the floodplain classifier."""
