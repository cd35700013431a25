"""AI chat feature: sticky personas, conversation memory and prompt building."""
