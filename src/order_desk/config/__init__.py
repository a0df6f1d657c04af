"""Configuration subpackage - settings, defaults and logging setup."""
