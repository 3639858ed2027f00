"""Framework-free telemetry core: models, emitters, aggregation, encoding."""
