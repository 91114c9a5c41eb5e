"""End-to-end model orchestration"""
