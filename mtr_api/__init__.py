"""Medication Therapy Review API."""
