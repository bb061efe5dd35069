"""配置层：全局 settings 与进程级默认凭证。"""
