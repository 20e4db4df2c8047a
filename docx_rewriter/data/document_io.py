"""文档包读写操作.

.docx 是一个ZIP包，这里把它加载为内存中的条目集合，供流水线各阶段读写。
每个请求持有自己的 DocxPackage，不存在跨请求共享的包状态。
"""

import io
import zipfile
from pathlib import Path
from typing import Dict, List, Union

from docx import Document
from loguru import logger

from docx_rewriter.data.models import PackageFile
from docx_rewriter.errors import DocumentValidationError

ZIP_SIGNATURE = b"PK"
DOCUMENT_PART = "word/document.xml"
DOCUMENT_RELS_PART = "word/_rels/document.xml.rels"
CONTENT_TYPES_PART = "[Content_Types].xml"


class DocxPackage:
    """内存中的 .docx 包."""

    def __init__(self, files: Dict[str, PackageFile], name: str = "document.docx") -> None:
        """初始化文档包.

        Args:
            files: 条目名称到条目的有序映射
            name: 文档文件名
        """
        self._files = files
        self.name = name

    @classmethod
    def from_bytes(cls, data: bytes, name: str = "document.docx", label: str = "Document") -> "DocxPackage":
        """从字节加载文档包.

        Args:
            data: 文件内容
            name: 文档文件名
            label: 错误信息中使用的文件描述

        Returns:
            DocxPackage 实例

        Raises:
            DocumentValidationError: 签名不正确或无法解析
        """
        if not data:
            raise DocumentValidationError(f"{label} file is missing or empty")
        if data[:2] != ZIP_SIGNATURE:
            raise DocumentValidationError(f"{label} file is not a valid .docx file (must be a ZIP archive)")

        try:
            files = {}
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                for info in archive.infolist():
                    files[info.filename] = PackageFile(
                        name=info.filename,
                        data=b"" if info.is_dir() else archive.read(info),
                        is_dir=info.is_dir(),
                    )
        except (zipfile.BadZipFile, zipfile.LargeZipFile) as e:
            logger.error(f"解析文档包失败: {e}")
            raise DocumentValidationError(f"{label} file could not be opened: {e}") from e

        logger.info(f"已加载文档包: {name}，共 {len(files)} 个条目")
        return cls(files, name=name)

    @classmethod
    def load(cls, file_path: Union[str, Path], label: str = "Document") -> "DocxPackage":
        """从磁盘加载文档包.

        Raises:
            FileNotFoundError: 文件不存在
            DocumentValidationError: 文件格式不正确
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")
        return cls.from_bytes(file_path.read_bytes(), name=file_path.name, label=label)

    def names(self) -> List[str]:
        return [name for name, f in self._files.items() if not f.is_dir]

    def files(self) -> List[PackageFile]:
        return list(self._files.values())

    def has(self, name: str) -> bool:
        return name in self._files and not self._files[name].is_dir

    def read_bytes(self, name: str) -> bytes:
        if not self.has(name):
            raise KeyError(name)
        return self._files[name].data

    def read_text(self, name: str) -> str:
        return self.read_bytes(name).decode("utf-8")

    def write(self, name: str, data: Union[str, bytes]) -> None:
        """写入或替换条目."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._files[name] = PackageFile(name=name, data=data)

    def document_xml(self, label: str = "Document") -> str:
        """读取正文XML.

        Raises:
            DocumentValidationError: 缺少 word/document.xml
        """
        if not self.has(DOCUMENT_PART):
            raise DocumentValidationError(f"Invalid {label.lower()} DOCX file: {DOCUMENT_PART} is missing")
        return self.read_text(DOCUMENT_PART)

    def to_bytes(self) -> bytes:
        """序列化为ZIP字节."""
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
            for f in self._files.values():
                if f.is_dir:
                    archive.writestr(zipfile.ZipInfo(f.name), b"")
                else:
                    archive.writestr(f.name, f.data)
        return buffer.getvalue()

    def verify(self) -> bytes:
        """序列化并用 python-docx 重新打开，确认输出是可用的Word文档.

        Returns:
            序列化后的字节

        Raises:
            DocumentValidationError: 输出无法被解析
        """
        data = self.to_bytes()
        try:
            Document(io.BytesIO(data))
        except Exception as e:
            logger.error(f"输出文档校验失败: {e}")
            raise DocumentValidationError(f"Generated document for {self.name} is not a valid Word document: {e}") from e
        return data


def save_bytes(data: bytes, output_path: Union[str, Path]) -> Path:
    """保存输出文件.

    Raises:
        ValueError: 保存失败
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        output_path.write_bytes(data)
        logger.info(f"已保存文件: {output_path}")
    except OSError as e:
        logger.error(f"保存文件失败: {e}")
        raise ValueError(f"保存文件失败: {e}")
    return output_path
