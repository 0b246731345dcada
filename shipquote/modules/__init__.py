"""
业务模块
Business Modules
"""
