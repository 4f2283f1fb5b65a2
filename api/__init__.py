"""StateLab HTTP boundary."""
