#!/usr/bin/env python3
"""Test playlist decoding and normalization."""

import sys
import textwrap

import pytest

from hlsdam.errors import ParseError
from hlsdam.models import ByteRange, EncryptionKey, MasterPlaylist, MediaPlaylist, PlaylistKind
from hlsdam.playlist import decode_playlist, parse_playlist


def _parse(text, uri="http://example.org/media.m3u8"):
    return parse_playlist(textwrap.dedent(text), uri)


def test_relative_uris():
    master = _parse(
        """
        #EXTM3U
        #EXT-X-MEDIA:TYPE=AUDIO,GROUP-ID="audio",NAME="Main",URI="audio.m3u8"
        #EXT-X-STREAM-INF:BANDWIDTH=1280000,AUDIO="audio"
        video.m3u8
        """,
        "http://example.org/master.m3u8",
    )
    assert isinstance(master, MasterPlaylist)
    assert master.kind is PlaylistKind.MASTER
    assert master.variants[0].uri == "http://example.org/video.m3u8"
    assert master.variants[0].alternatives[0].uri == "http://example.org/audio.m3u8"

    media = _parse(
        """
        #EXTM3U
        #EXT-X-VERSION:6
        #EXT-X-TARGETDURATION:10
        #EXT-X-KEY:METHOD=AES-128,URI="key"
        #EXT-X-MAP:URI="map"
        #EXTINF:9.0,
        seg.ts
        """
    )
    assert isinstance(media, MediaPlaylist)
    assert media.kind is PlaylistKind.MEDIA
    segment = media.segments[0]
    assert segment.uri == "http://example.org/seg.ts"
    assert segment.map.uri == "http://example.org/map"
    assert segment.key.uri == "http://example.org/key"
    print("✓ Relative URI resolution test passed")


def test_absolute_uris_pass_through():
    master = _parse(
        """
        #EXTM3U
        #EXT-X-MEDIA:TYPE=AUDIO,GROUP-ID="audio",NAME="Main",URI="https://cdn.example.com/audio.m3u8"
        #EXT-X-STREAM-INF:BANDWIDTH=1280000,AUDIO="audio"
        https://cdn.example.com/video.m3u8
        """,
        "http://example.org/master.m3u8",
    )
    assert master.variants[0].uri == "https://cdn.example.com/video.m3u8"
    assert master.variants[0].alternatives[0].uri == "https://cdn.example.com/audio.m3u8"

    media = _parse(
        """
        #EXTM3U
        #EXT-X-TARGETDURATION:10
        #EXTINF:9.0,
        https://cdn.example.com/seg.ts
        """
    )
    assert media.segments[0].uri == "https://cdn.example.com/seg.ts"
    print("✓ Absolute URI test passed")


def test_extra_tags():
    master = _parse(
        """
        #EXTM3U
        #EXT-X-INDEPENDENT-SEGMENTS
        #EXT-X-START:TIME-OFFSET=1.2,PRECISE=YES
        #EXT-X-STREAM-INF:BANDWIDTH=1280000
        media.m3u8
        """
    )
    assert master.independent_segments
    assert master.start_precise
    assert master.start_offset == pytest.approx(1.2)
    print("✓ EXT-X-INDEPENDENT-SEGMENTS / EXT-X-START test passed")


def test_renditions_are_grouped_by_type_and_group_id():
    master = _parse(
        """
        #EXTM3U
        #EXT-X-MEDIA:TYPE=AUDIO,GROUP-ID="aac",NAME="English",LANGUAGE="en",URI="english-audio.m3u8"
        #EXT-X-STREAM-INF:BANDWIDTH=65000,AUDIO="aac"
        english-audio.m3u8
        #EXT-X-MEDIA:TYPE=AUDIO,GROUP-ID="aac",NAME="Deutsch",LANGUAGE="de",URI="german-audio.m3u8"
        #EXT-X-STREAM-INF:BANDWIDTH=1280000,AUDIO="aac"
        video-only.m3u8
        #EXT-X-MEDIA:TYPE=AUDIO,GROUP-ID="aac",NAME="Commentary",LANGUAGE="en",URI="commentary-audio.m3u8"
        #EXT-X-MEDIA:TYPE=SUBTITLES,GROUP-ID="subs",NAME="Captions",LANGUAGE="en",URI="subs.m3u8"
        #EXT-X-STREAM-INF:BANDWIDTH=2560000,AUDIO="aac",SUBTITLES="subs"
        mid/video-only.m3u8
        """,
        "http://example.org/master.m3u8",
    )

    assert [variant.bandwidth for variant in master.variants] == [65000, 1280000, 2560000]
    for variant in master.variants[:2]:
        assert sorted(r.name for r in variant.alternatives) == ["Commentary", "Deutsch", "English"]

    last = master.variants[2]
    assert sorted(r.name for r in last.alternatives) == [
        "Captions",
        "Commentary",
        "Deutsch",
        "English",
    ]
    assert last.uri == "http://example.org/mid/video-only.m3u8"

    # renditions are shared, not copied per variant
    english = [r for r in master.variants[0].alternatives if r.name == "English"][0]
    assert any(r is english for r in master.variants[1].alternatives)
    print("✓ Rendition grouping test passed")


def test_iframe_variants_are_flagged():
    master = _parse(
        """
        #EXTM3U
        #EXT-X-STREAM-INF:BANDWIDTH=1280000
        low.m3u8
        #EXT-X-I-FRAME-STREAM-INF:BANDWIDTH=86000,URI="iframes.m3u8"
        """,
        "http://example.org/master.m3u8",
    )
    assert [v.iframe_only for v in master.variants] == [False, True]
    assert master.variants[1].uri == "http://example.org/iframes.m3u8"


def test_sequence_numbers():
    media = _parse(
        """
        #EXTM3U
        #EXT-X-TARGETDURATION:6
        #EXT-X-MEDIA-SEQUENCE:100
        #EXTINF:6.0,
        a.ts
        #EXTINF:6.0,
        b.ts
        #EXTINF:5.5,
        c.ts
        """
    )
    assert [segment.sequence for segment in media.segments] == [100, 101, 102]
    assert media.media_sequence == 100
    assert media.last_sequence == 102
    assert media.target_duration == 6.0
    assert not media.closed
    print("✓ Sequence numbering test passed")


def test_fractional_target_duration():
    media = _parse(
        """
        #EXTM3U
        #EXT-X-TARGETDURATION:2.5
        #EXTINF:2.0,
        a.ts
        """
    )
    assert isinstance(media, MediaPlaylist)
    assert media.target_duration == 2.5
    assert [segment.uri for segment in media.segments] == ["http://example.org/a.ts"]


def test_malformed_target_duration():
    with pytest.raises(ParseError):
        _parse(
            """
            #EXTM3U
            #EXT-X-TARGETDURATION:soon
            #EXTINF:2.0,
            a.ts
            """
        )


def test_sequence_defaults_to_zero_and_endlist_closes():
    media = _parse(
        """
        #EXTM3U
        #EXT-X-TARGETDURATION:6
        #EXTINF:6.0,
        a.ts
        #EXT-X-ENDLIST
        """
    )
    assert media.segments[0].sequence == 0
    assert media.closed


def test_sticky_key_propagation():
    media = _parse(
        """
        #EXTM3U
        #EXT-X-TARGETDURATION:10
        #EXT-X-KEY:METHOD=AES-128,URI="k1"
        #EXTINF:9.0,
        a.ts
        #EXTINF:9.0,
        b.ts
        #EXT-X-KEY:METHOD=NONE
        #EXTINF:9.0,
        c.ts
        #EXTINF:9.0,
        d.ts
        """
    )
    k1 = EncryptionKey(method="AES-128", uri="http://example.org/k1")
    assert [segment.key for segment in media.segments] == [k1, k1, None, None]
    assert media.segments[0].key is media.segments[1].key
    print("✓ Sticky key propagation test passed")


def test_new_key_replaces_previous():
    media = _parse(
        """
        #EXTM3U
        #EXT-X-TARGETDURATION:10
        #EXT-X-KEY:METHOD=AES-128,URI="k1"
        #EXTINF:9.0,
        a.ts
        #EXT-X-KEY:METHOD=AES-128,URI="k2"
        #EXTINF:9.0,
        b.ts
        #EXTINF:9.0,
        c.ts
        """
    )
    assert [segment.key.uri for segment in media.segments] == [
        "http://example.org/k1",
        "http://example.org/k2",
        "http://example.org/k2",
    ]


def test_byteranges():
    media = _parse(
        """
        #EXTM3U
        #EXT-X-VERSION:4
        #EXT-X-TARGETDURATION:10
        #EXTINF:9.0,
        #EXT-X-BYTERANGE:1000@0
        all.ts
        #EXTINF:9.0,
        #EXT-X-BYTERANGE:1000
        all.ts
        #EXTINF:9.0,
        other.ts
        """
    )
    assert [segment.byterange for segment in media.segments] == [
        ByteRange(length=1000, offset=0),
        ByteRange(length=1000),
        None,
    ]


def test_malformed_byterange():
    with pytest.raises(ParseError):
        _parse(
            """
            #EXTM3U
            #EXT-X-TARGETDURATION:10
            #EXTINF:9.0,
            #EXT-X-BYTERANGE:lots
            all.ts
            """
        )


def test_rejects_non_playlists():
    with pytest.raises(ParseError):
        decode_playlist("<html>not found</html>", "http://example.org/media.m3u8")


def test_unresolvable_uri():
    with pytest.raises(ParseError):
        _parse(
            """
            #EXTM3U
            #EXT-X-TARGETDURATION:10
            #EXTINF:9.0,
            http://[::1/seg.ts
            """
        )


def test_iframes_only_media_playlist():
    media = _parse(
        """
        #EXTM3U
        #EXT-X-VERSION:4
        #EXT-X-TARGETDURATION:10
        #EXT-X-I-FRAMES-ONLY
        #EXTINF:9.0,
        #EXT-X-BYTERANGE:1000@0
        all.ts
        """
    )
    assert media.iframe_only


if __name__ == "__main__":
    sys.exit(pytest.main([__file__]))
