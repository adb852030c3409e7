from django.conf import settings


class ResolveError(Exception):
    code = "resolve_error"
    status = 500


class UnknownProject(ResolveError):
    code = "unknown_project"


def release_base_for(project, release_bases=None):
    if release_bases is None:
        release_bases = settings.BREW_RELEASE_BASES
    try:
        return release_bases[project]
    except KeyError:
        raise UnknownProject("No release base configured for project %s" % project)


def resolve(identity, project_release_base):
    """
    URL of the release asset the bottle was published as.

    Release assets are always named ``{project}-{version}.{platform}``,
    so a request that used a dash before the platform tag is redirected
    to the dot-separated asset name rather than echoing the request.
    """
    return "%s/releases/download/v%s/%s" % (
        project_release_base.rstrip("/"),
        identity.version,
        identity.filename,
    )
