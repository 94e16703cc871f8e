"""
livescraper — accessibility-tree UI automation for Android apps.

Drives third-party apps through their on-screen UI tree to run two kinds
of workflows:

    posting   : publish a caption (and optional photo/video) to Facebook
    scraping  : open a Bigo Live host's contribution ranking and extract
                the Daily / Weekly / Monthly / Overall lists as JSON

Layers (leaf first):
    tree            : Node model, hierarchy parser, abstract TreeClient
    device_client   : TreeClient backed by the Android device node (ADB)
    query           : stateless node search
    interaction     : click / set-text / gestures with fallbacks
    navigation      : foreground check, go-back, popups, launch
    workflow        : step contract, runner, outcome
    posting         : Facebook post workflow
    scraping        : Bigo Live contribution-ranking workflow
    service         : one-workflow-at-a-time boundary
"""

__version__ = "1.0.0"
