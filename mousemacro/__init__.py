"""
Mouse Macro - global input recording and macro playback engine
"""

__version__ = "1.0.0"
