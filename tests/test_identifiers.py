"""Base62 encoding and collision probing."""

import pytest

from shortlink.identifiers import (
    BASE62_ALPHABET,
    MAX_CODE_SEED,
    MAX_SEED,
    IdentifierGenerator,
    decode,
    encode,
)


class FakeCodeStore:
    def __init__(self, taken: set[str] | None = None):
        self.taken = set(taken or ())
        self.checks: list[str] = []

    async def exists_by_code(self, code: str) -> bool:
        self.checks.append(code)
        return code in self.taken


def test_alphabet_order() -> None:
    assert len(BASE62_ALPHABET) == 62
    assert BASE62_ALPHABET[:10] == "0123456789"
    assert BASE62_ALPHABET[10] == "A"
    assert BASE62_ALPHABET[36] == "a"


@pytest.mark.parametrize(
    "value, expected",
    [(0, "0"), (9, "9"), (10, "A"), (35, "Z"), (36, "a"), (61, "z"), (62, "10"), (3843, "zz")],
)
def test_encode_known_values(value: int, expected: str) -> None:
    assert encode(value) == expected


@pytest.mark.parametrize("value", [1, 61, 62, 12345, 1_700_000_000_000, MAX_SEED])
def test_decode_inverts_encode(value: int) -> None:
    assert decode(encode(value)) == value


def test_encode_rejects_out_of_range() -> None:
    with pytest.raises(ValueError):
        encode(-1)
    with pytest.raises(ValueError):
        encode(MAX_SEED + 1)


@pytest.mark.parametrize("code", ["", "ab-c", "abc!", "é"])
def test_decode_rejects_invalid_codes(code: str) -> None:
    with pytest.raises(ValueError):
        decode(code)


def test_decode_rejects_overflow() -> None:
    with pytest.raises(ValueError):
        decode("z" * 12)


def test_millisecond_seed_fits_column() -> None:
    assert len(encode(4_102_444_800_000 + 9_999)) <= 10


@pytest.mark.asyncio
async def test_generate_unique_returns_free_code() -> None:
    store = FakeCodeStore()
    generator = IdentifierGenerator(store, seed_source=lambda: 62)

    assert await generator.generate_unique() == "10"
    assert store.checks == ["10"]


@pytest.mark.asyncio
async def test_generate_unique_probes_past_collisions() -> None:
    store = FakeCodeStore(taken={"10", "11"})
    generator = IdentifierGenerator(store, seed_source=lambda: 62)

    assert await generator.generate_unique() == "12"
    assert store.checks == ["10", "11", "12"]


@pytest.mark.asyncio
async def test_generate_unique_from_explicit_seed() -> None:
    store = FakeCodeStore(taken={encode(1000)})
    generator = IdentifierGenerator(store)

    assert await generator.generate_unique_from(1000) == encode(1001)


@pytest.mark.asyncio
async def test_probing_is_bounded() -> None:
    store = FakeCodeStore(taken={encode(n) for n in range(100, 105)})
    generator = IdentifierGenerator(store, seed_source=lambda: 100, max_probes=5)

    with pytest.raises(RuntimeError):
        await generator.generate_unique()
    assert len(store.checks) == 5


@pytest.mark.asyncio
async def test_default_seed_source_produces_decodable_codes() -> None:
    generator = IdentifierGenerator(FakeCodeStore())

    code = await generator.generate_unique()
    assert 1 <= len(code) <= 10
    assert decode(code) > 0


@pytest.mark.asyncio
async def test_seeds_past_ten_characters_are_rejected() -> None:
    store = FakeCodeStore()
    generator = IdentifierGenerator(store)

    assert len(encode(MAX_CODE_SEED)) == 10
    assert len(encode(MAX_CODE_SEED + 1)) == 11
    with pytest.raises(ValueError):
        await generator.generate_unique_from(MAX_CODE_SEED + 1)
    assert store.checks == []


@pytest.mark.asyncio
async def test_probing_stops_at_the_ten_character_ceiling() -> None:
    store = FakeCodeStore(taken={encode(MAX_CODE_SEED)})
    generator = IdentifierGenerator(store)

    with pytest.raises(RuntimeError):
        await generator.generate_unique_from(MAX_CODE_SEED)
    assert store.checks == [encode(MAX_CODE_SEED)]
