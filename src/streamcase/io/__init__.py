"""I/O layer: envelope types and serialization codecs."""
