"""
PMS 入住生命周期与房间分配引擎
"""
__version__ = "0.1.0"
