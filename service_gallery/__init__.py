"""Emoji gallery service."""
