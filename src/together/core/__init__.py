"""2gether Core -- 事件日志 + Task 物化视图的本地持久化核心"""

__version__ = "0.3.0"
