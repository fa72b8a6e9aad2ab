"""Run notifications."""
