import factory
import factory.django


class BrewDownloadFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = "brew.BrewDownload"

    project = "rona"
    version = factory.Sequence(lambda n: "2.%d.0" % n)
    platform = "arm64_sequoia"
    download_count = 1
    install_count = factory.SelfAttribute("download_count")
