"""
Backend Scripts Module

Utility scripts for database setup and maintenance.

Available scripts:
    - seed_data.py: Creates sample directory users, routing groups and mappings

Usage:
    python -m scripts.seed_data [--clear]
"""
