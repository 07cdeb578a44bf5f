"""
Sentinel Service Layer

Questionnaire, prompt assembly, inference execution, parsing, fallback,
risk combination, longitudinal memory and the crisis lifecycle.
"""
