"""配置：默认值（assets/default.yaml）+ YAML overlays + pydantic 校验。"""
