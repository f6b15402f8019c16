"""StoryWriter: resilient story generation core for a voice-driven children's app."""

__version__ = "0.1.0"
