from django.apps import AppConfig


class RouteSequencerConfig(AppConfig):
    name = "route_sequencer"
    verbose_name = "Route sequencer"
