"""Logging and configuration helpers"""
