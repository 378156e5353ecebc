import datetime

import pytest

from odatafeed import StructureError, parse_feed
from odatafeed.atom import SCHEME, _parse_date

NAMESPACES = (
    'xmlns="http://www.w3.org/2005/Atom" '
    'xmlns:d="http://schemas.microsoft.com/ado/2007/08/dataservices" '
    'xmlns:m="http://schemas.microsoft.com/ado/2007/08/dataservices/metadata"'
)


def test_parse_feed_reads_entries_and_metadata():
    xml = f"""<?xml version="1.0" encoding="utf-8"?>
<feed {NAMESPACES}>
  <id>http://example.com/Customers</id>
  <title type="text">Customers</title>
  <updated>2024-01-15T10:30:00Z</updated>
  <entry>
    <id>http://example.com/Customers('ALFKI')</id>
    <title type="text">Alfreds</title>
    <summary type="text">A customer</summary>
    <rights type="text">(c) Example</rights>
    <published>2024-01-14T08:00:00+02:00</published>
    <updated>2024-01-15T10:30:00Z</updated>
    <author><name>Maria</name><email>maria@example.com</email><uri>http://example.com/maria</uri></author>
    <contributor><name>Ana</name></contributor>
    <category term="NorthwindModel.Customer" scheme="{SCHEME}" />
    <link rel="edit" title="Customer" href="Customers('ALFKI')" />
    <content type="application/xml">
      <m:properties><d:CustomerID>ALFKI</d:CustomerID></m:properties>
    </content>
  </entry>
</feed>"""
    feed = parse_feed(xml)

    assert feed.id == "http://example.com/Customers"
    assert feed.title.content == "Customers"
    assert len(feed.entries) == 1
    assert feed.entry_type == "NorthwindModel.Customer"

    entry = feed.entries[0]
    assert entry.title.content == "Alfreds"
    assert entry.summary == "A customer"
    assert entry.rights.content == "(c) Example"
    assert entry.published == datetime.datetime(2024, 1, 14, 6, 0, tzinfo=datetime.timezone.utc)
    assert entry.updated == datetime.datetime(2024, 1, 15, 10, 30, tzinfo=datetime.timezone.utc)
    assert entry.authors[0].name == "Maria"
    assert entry.authors[0].email == "maria@example.com"
    assert entry.authors[0].uri == "http://example.com/maria"
    assert entry.contributors[0].name == "Ana"
    assert entry.contributors[0].email is None
    assert entry.links[0].rel == "edit"
    assert entry.links[0].has_inline is False
    assert entry.inline_content.tag.endswith("}properties")


def test_parse_feed_keeps_only_direct_entries():
    xml = f"""<feed {NAMESPACES}>
  <entry>
    <link rel="related" title="Orders" href="x">
      <m:inline>
        <feed><entry><id>nested-1</id></entry><entry><id>nested-2</id></entry></feed>
      </m:inline>
    </link>
  </entry>
</feed>"""
    feed = parse_feed(xml)
    assert len(feed.entries) == 1
    link = feed.entries[0].links[0]
    assert link.has_inline is True
    assert link.inline.tag == "{http://www.w3.org/2005/Atom}feed"


def test_parse_feed_empty_inline_link():
    xml = f"""<feed {NAMESPACES}>
  <entry><link rel="related" title="Manager" href="x"><m:inline /></link></entry>
</feed>"""
    link = parse_feed(xml).entries[0].links[0]
    assert link.has_inline is True
    assert link.inline is None


def test_parse_single_entry_document():
    xml = f"""<entry {NAMESPACES}>
  <id>http://example.com/Customers('ALFKI')</id>
  <category term="NorthwindModel.Customer" scheme="{SCHEME}" />
</entry>"""
    feed = parse_feed(xml)
    assert len(feed.entries) == 1
    assert feed.entry_type == "NorthwindModel.Customer"


def test_media_link_entry_properties_outside_content():
    xml = f"""<feed {NAMESPACES}>
  <entry>
    <content type="image/png" src="Photos(1)/$value" />
    <m:properties><d:Name>Sunset</d:Name></m:properties>
  </entry>
</feed>"""
    entry = parse_feed(xml).entries[0]
    assert entry.content.src == "Photos(1)/$value"
    assert entry.inline_content is not None
    assert entry.inline_content[0].text == "Sunset"


def test_parse_str_with_non_utf8_xml_declaration():
    xml = (
        '<?xml version="1.0" encoding="iso-8859-1"?>'
        '<feed xmlns="http://www.w3.org/2005/Atom">'
        "<title>café</title>"
        "<entry><title>café</title></entry>"
        "</feed>"
    )
    feed = parse_feed(xml)
    assert feed.title.content == "café"
    assert feed.entries[0].title.content == "café"


def test_parse_bytes_with_bom_and_leading_junk():
    xml_bytes = b'\xef\xbb\xbfjunk<feed xmlns="http://www.w3.org/2005/Atom"><entry /></feed>'
    feed = parse_feed(xml_bytes)
    assert len(feed.entries) == 1


def test_html_content_is_rejected():
    with pytest.raises(StructureError, match="HTML"):
        parse_feed("<!doctype html><html><body>nope</body></html>")


def test_empty_content_is_rejected():
    with pytest.raises(StructureError):
        parse_feed(b"   ")


def test_non_atom_root_is_rejected():
    with pytest.raises(StructureError, match="Unknown Atom namespace"):
        parse_feed('<rss version="2.0"><channel /></rss>')


def test_parse_date_formats():
    utc = datetime.timezone.utc
    assert _parse_date("2024-01-15T10:30:00Z") == datetime.datetime(2024, 1, 15, 10, 30, tzinfo=utc)
    assert _parse_date("2024-01-15T10:30:00") == datetime.datetime(2024, 1, 15, 10, 30, tzinfo=utc)
    assert _parse_date("Mon, 15 Jan 2024 10:30:00 +0000") == datetime.datetime(
        2024, 1, 15, 10, 30, tzinfo=utc
    )
    assert _parse_date("not a date") is None
    assert _parse_date("") is None
