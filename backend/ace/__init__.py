"""
Ace backend: activity tracking, productivity analysis and adaptive memory
for a proactive productivity assistant.
"""
