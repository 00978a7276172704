"""
Seminar schedule tools: schedule viewer, speaker proposals, admin data editor.
"""
