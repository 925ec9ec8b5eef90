"""BootHillGM decision and narrative impact engine."""
