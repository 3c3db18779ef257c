"""Upstream speech-to-speech service integration."""
