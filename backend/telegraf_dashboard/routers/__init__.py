"""
路由模块包 (Router Module Package)

- stats.py: 分页主机概览（汇总、分页、连接池诊断、首页缓存）
- history.py: 单主机 CPU / 内存历史曲线

所有路由在 main.py 中通过 app.include_router() 统一注册。
"""
