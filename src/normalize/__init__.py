"""Canonical records and the sensor readings table"""
