"""
Platform tags that may appear in a bottle filename.

Homebrew names bottles after the OS release they were built on, with an
``arm64_`` prefix for Apple Silicon builds. Linux bottles carry the
architecture instead. Add new releases to MACOS_RELEASES; anything else
can be added at deploy time through settings.BREW_EXTRA_PLATFORM_TAGS.
"""
from django.conf import settings

MACOS_RELEASES = (
    "tahoe",
    "sequoia",
    "sonoma",
    "ventura",
    "monterey",
    "big_sur",
    "catalina",
    "mojave",
    "high_sierra",
)

# Apple Silicon bottles exist from Big Sur onwards
ARM64_MACOS_RELEASES = MACOS_RELEASES[: MACOS_RELEASES.index("big_sur") + 1]

LINUX_TAGS = ("x86_64_linux", "arm64_linux")

PLATFORM_TAGS = frozenset(
    MACOS_RELEASES
    + tuple("arm64_%s" % release for release in ARM64_MACOS_RELEASES)
    + LINUX_TAGS
    + ("all",)
)


def known_platforms():
    extra = getattr(settings, "BREW_EXTRA_PLATFORM_TAGS", ())
    return PLATFORM_TAGS | frozenset(tag.strip() for tag in extra if tag.strip())
