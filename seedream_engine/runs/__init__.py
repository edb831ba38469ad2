"""Per-request pipeline stages and records."""
