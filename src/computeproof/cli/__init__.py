"""命令行模块"""
from .commands import cli


def main():
    """CLI入口"""
    cli(prog_name="computeproof")
