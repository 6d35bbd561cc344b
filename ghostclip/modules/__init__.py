"""Numbered pipeline stages: M1 capture → M5 playback."""
