"""Prompt Rater - generation runs and rating tournaments for LLM prompt configurations"""
