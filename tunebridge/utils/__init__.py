"""Logging and helper utilities for TuneBridge"""
