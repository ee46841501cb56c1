"""Media library backend: persistence, filesystem guard and the media feature."""
