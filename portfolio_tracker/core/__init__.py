"""Cross-cutting logging and telemetry helpers."""
