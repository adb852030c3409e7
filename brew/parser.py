"""
Turns a tracking request into a BottleIdentity.

Bottle filenames look like this:

    rona-2.17.7.arm64_sequoia.bottle.tar.gz

That is ``{project}-{version}.{platform}`` followed by BOTTLE_SUFFIX. The
platform is the last dot or dash separated token and has to be one of the
known platform tags, otherwise the whole filename is rejected rather than
folding an unknown tag into the version.

Each part also has to fit the column it is stored in, so an oversized
request is a client error rather than a failed database write.
"""
from dataclasses import dataclass
import re

from .models import BrewDownload
from .platforms import known_platforms

BOTTLE_SUFFIX = ".bottle.tar.gz"

# Keys used alongside versions in the stats response
RESERVED_VERSIONS = ("total_downloads", "total_installs")

project_re = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._+-]*$")
version_re = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._+~-]*$")
platform_split_re = re.compile(r"^(?P<head>.*)[.-](?P<platform>[^.-]+)$")


class ParseError(Exception):
    code = "parse_error"
    status = 400


class InvalidProjectSlug(ParseError):
    code = "invalid_project"


class UnrecognizedFilename(ParseError):
    code = "unrecognized_filename"


class MalformedVersion(ParseError):
    code = "malformed_version"


@dataclass(frozen=True)
class BottleIdentity:
    project: str
    version: str
    platform: str

    @property
    def key(self):
        return (self.project, self.version, self.platform)

    @property
    def filename(self):
        return "%s-%s.%s%s" % (self.project, self.version, self.platform, BOTTLE_SUFFIX)


def max_length(field_name):
    return BrewDownload._meta.get_field(field_name).max_length


def check_project_slug(project_slug):
    if not project_slug:
        raise InvalidProjectSlug("Project name is empty")
    if ".." in project_slug or not project_re.match(project_slug):
        raise InvalidProjectSlug("Invalid project name: %s" % project_slug)
    if len(project_slug) > max_length("project"):
        raise InvalidProjectSlug("Project name too long: %s" % project_slug)
    return project_slug


def parse(project_slug, filename, platforms=None):
    project = check_project_slug(project_slug)
    if platforms is None:
        platforms = known_platforms()

    if not filename.endswith(BOTTLE_SUFFIX):
        raise UnrecognizedFilename("Not a bottle filename: %s" % filename)
    base = filename[: -len(BOTTLE_SUFFIX)]

    prefix = project + "-"
    if not base.startswith(prefix):
        raise UnrecognizedFilename(
            "Filename %s does not belong to project %s" % (filename, project)
        )
    name_version = base[len(prefix) :]

    match = platform_split_re.match(name_version)
    if match:
        version, platform = match.group("head"), match.group("platform")
    else:
        # No separator left, so there is at most a platform tag
        version, platform = "", name_version

    if platform not in platforms:
        raise UnrecognizedFilename(
            "Unknown platform tag %r in filename %s" % (platform, filename)
        )
    if len(platform) > max_length("platform"):
        raise UnrecognizedFilename("Platform tag too long in filename %s" % filename)
    if not version:
        raise MalformedVersion("Missing version in filename: %s" % filename)
    if version in RESERVED_VERSIONS or not version_re.match(version):
        raise MalformedVersion("Invalid version %r in filename %s" % (version, filename))
    if len(version) > max_length("version"):
        raise MalformedVersion("Version too long in filename %s" % filename)

    return BottleIdentity(project=project, version=version, platform=platform)
