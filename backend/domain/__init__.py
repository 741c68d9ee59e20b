"""Domain enums, constants, errors and response envelopes."""
