"""Host implementations that drive the presence engine."""
