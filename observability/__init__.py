"""Structured lifecycle events shared by the command server and the voice pipeline."""
