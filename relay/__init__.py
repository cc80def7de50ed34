"""
Relay - Orchestration layer between the desktop assistant and its backend services.
"""
