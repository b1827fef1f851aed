"""Services: storage, auto-save, effects and notifications."""
