GENERIC = "generic"
NPM = "npm"
COCOAPODS = "cocoapods"
# OSS Index has no gradle type, so Gradle coordinates are published as maven
GRADLE = "maven"


def purl(package_type: str, name: str, version: str) -> str:
    """Package URL for the given type, name and version, e.g. pkg:npm/react@17.0.1"""
    return f"pkg:{package_type}/{name.replace('@', '%40')}@{version}"
