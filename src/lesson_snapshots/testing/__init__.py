"""Testing – fakes and event generators for exercising the engine."""
