"""
核心模块包 (Core Module Package)

配置管理、遥测库连接池、响应缓存、Redis 连接与全局异常处理等基础组件。

Configuration, the telemetry store pool, response caching, Redis access and
global exception handling.
"""
