"""Input loading and validation"""
