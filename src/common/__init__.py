"""Shared configuration"""
