"""主入口模块

该模块是computeproof的入口点，负责启动命令行工具；
配置加载和日志初始化在命令组中完成。
"""

from .cli import main

if __name__ == '__main__':
    main()
