"""
Site Analytics
"""
