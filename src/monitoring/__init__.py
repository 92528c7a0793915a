"""Scrape orchestration and scheduling."""
