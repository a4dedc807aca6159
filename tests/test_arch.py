from logdiag.arch import (
    cpu_supports_32bit,
    extract_foreign_architectures,
    is_supported,
    native_architecture,
    remove_architecture_commands,
    unsupported_architectures,
)

from conftest import FakeRunner

LOG = (
    "Ign:4 http://ports.ubuntu.com jammy/main i386 Packages\n"
    "Err:7 http://deb.debian.org/debian 404  Not Found [IP: 151.101.2.132 80] bookworm/main armhf Packages\n"
    "Ign:8 http://ports.ubuntu.com jammy/universe i386 Packages\n"
)


def test_extract_foreign_architectures_in_order_without_duplicates() -> None:
    assert extract_foreign_architectures(LOG) == ["i386", "armhf"]


def test_supported_architecture_pairs() -> None:
    assert is_supported("amd64", "i386", False)
    assert not is_supported("amd64", "armhf", False)
    assert is_supported("arm64", "armhf", True)
    assert not is_supported("arm64", "armhf", False)
    assert is_supported("armhf", "arm64", True)
    assert not is_supported("armhf", "arm64", False)
    assert is_supported("riscv64", "riscv64", False)


def test_unsupported_architectures_and_commands() -> None:
    assert unsupported_architectures(LOG, "amd64", False) == ["armhf"]
    unsupported = unsupported_architectures(LOG, "arm64", True)
    assert unsupported == ["i386"]
    assert remove_architecture_commands(["i386", "armhf"]) == (
        "sudo dpkg --remove-architecture i386\nsudo dpkg --remove-architecture armhf"
    )


def test_native_architecture_falls_back_to_uname() -> None:
    assert native_architecture(FakeRunner({("dpkg",): "arm64\n"})) == "arm64"
    assert native_architecture(FakeRunner({("uname", "-m"): "aarch64\n"})) == "arm64"
    assert native_architecture(FakeRunner({("uname", "-m"): "x86_64\n"})) == "amd64"


def test_cpu_supports_32bit() -> None:
    assert cpu_supports_32bit(FakeRunner({("lscpu",): "Architecture: aarch64\nCPU op-mode(s):      32-bit, 64-bit\n"}))
    assert not cpu_supports_32bit(FakeRunner({("lscpu",): "CPU op-mode(s):      64-bit\n"}))
