"""Ordered lists and cards with transactional bulk mutations."""
