"""命令行入口（`sqlite-cli-bridge`）。"""
