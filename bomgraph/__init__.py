from bomgraph.__version__ import __version__
