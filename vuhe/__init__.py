"""vuhe — knigavuhe.org 有声书目录解析与续播核心"""

__version__ = "1.0.0"
