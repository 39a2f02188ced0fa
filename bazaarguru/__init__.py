"""bazaarGuru Deals Bot Application Package.

A Telegram bot that helps shoppers in India find deals and coupons from
partner stores and turns shop links into personal affiliate links with
click and conversion tracking.

The application follows a modular architecture with separate concerns for:
- Bot handlers, keyboards and message templates
- Affiliate link generation, click tracking and conversion attribution
- Catalog data from the deals backend with Redis caching
- Operational tooling: health checks, monitoring and stress tests
"""
