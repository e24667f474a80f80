"""业务层 - 定价、订单流转、应收汇总、财务报表、导出与调度

所有服务都显式接收 EntityStore，不依赖模块级全局对象。
"""
