"""Scheduling core: dates, language understanding, rules, availability and conversation flow."""
