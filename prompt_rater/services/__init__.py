"""
Orchestration services: lifecycle, run tracking, ingestion, bracket seeding and recovery.
"""
