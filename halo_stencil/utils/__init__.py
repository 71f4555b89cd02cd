"""
工具模块

包含计时与显存记录工具。
"""

from .profiler import Profiler

__all__ = ["Profiler"]
