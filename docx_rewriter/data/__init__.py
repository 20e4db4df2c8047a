"""数据处理模块."""

"""
docx_rewriter/data/
├── __init__.py
├── document_io.py            # 文档包读写
├── models.py                 # 数据模型定义
├── xml_text.py               # w:t 文本提取与转义
├── context_extractor.py      # 滑动窗口上下文
├── run_scanner.py            # 文本块扫描
├── placeholder_detector/     # 占位符检测器
│   ├── __init__.py
│   ├── base_detector.py
│   ├── highlight_detector.py
│   └── run_detector.py
├── xml_rewriter.py           # 替换结果回写
├── allocation_inferencer.py  # 资产配置/业绩曲线推断
└── report_generator.py       # 变更记录与报告
"""
