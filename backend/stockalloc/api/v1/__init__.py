"""API version 1 routes"""
