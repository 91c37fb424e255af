"""Domain services. Each module owns its db.session commits."""
