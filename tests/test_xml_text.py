"""文本提取工具测试."""

from docx_rewriter.data.xml_text import decode_entities, escape_xml, extract_text_from_xml


def test_extract_text_joins_nodes_in_order():
    xml = '<w:p><w:r><w:t>Hello</w:t></w:r><w:r><w:tab/><w:t xml:space="preserve">world </w:t></w:r></w:p>'
    assert extract_text_from_xml(xml) == "Hello world"


def test_extract_text_without_nodes_returns_empty():
    assert extract_text_from_xml("<w:document><w:body/></w:document>") == ""


def test_extract_text_keeps_entities_encoded():
    assert extract_text_from_xml("<w:t>AT&amp;T</w:t>") == "AT&amp;T"


def test_decode_entities():
    assert decode_entities("AT&amp;T &lt;b&gt; &quot;x&quot; &apos;y&apos; &#36;5 &#x41;") == "AT&T <b> \"x\" 'y' $5 A"


def test_escape_xml_escapes_all_reserved_characters():
    assert escape_xml("a & b < c > \"d\" 'e'") == "a &amp; b &lt; c &gt; &quot;d&quot; &apos;e&apos;"
