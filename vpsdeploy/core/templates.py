"""Rendering of files written to the target host."""

from jinja2 import Environment

from vpsdeploy.config import settings

# HTTP only; certbot --nginx --redirect adds the 443 server and the redirect
# once a certificate exists, so `nginx -t` passes before issuance.
NGINX_SITE_TEMPLATE = """# Managed by vpsdeploy
server {
    listen 80;
    listen [::]:80;
    server_name {{ domain }} www.{{ domain }};

    add_header X-Frame-Options "SAMEORIGIN" always;
    add_header X-XSS-Protection "1; mode=block" always;
    add_header X-Content-Type-Options "nosniff" always;
    add_header Referrer-Policy "no-referrer-when-downgrade" always;
    add_header Content-Security-Policy "default-src 'self' http: https: data: blob: 'unsafe-inline'" always;

    gzip on;
    gzip_vary on;
    gzip_min_length 1024;
    gzip_types text/plain text/css text/xml text/javascript application/javascript application/xml+rss application/json;

    location / {
        proxy_pass http://127.0.0.1:{{ app_port }};
        proxy_http_version 1.1;
        proxy_set_header Upgrade $http_upgrade;
        proxy_set_header Connection 'upgrade';
        proxy_set_header Host $host;
        proxy_set_header X-Real-IP $remote_addr;
        proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
        proxy_set_header X-Forwarded-Proto $scheme;
        proxy_cache_bypass $http_upgrade;
        proxy_read_timeout 86400;
    }

    location ~* \\.(jpg|jpeg|png|gif|ico|css|js)$ {
        proxy_pass http://127.0.0.1:{{ app_port }};
        expires 1y;
        add_header Cache-Control "public, immutable";
    }
}
"""

ENV_FILE_TEMPLATE = """{% for key, value in variables.items() -%}
{{ key }}={{ value | dotenv_quote }}
{% endfor %}"""


def _dotenv_quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


_env = Environment(keep_trailing_newline=True, autoescape=False)
_env.filters["dotenv_quote"] = _dotenv_quote


def render_nginx_site(domain: str, app_port: int | None = None) -> str:
    """Render the reverse-proxy virtual host for ``domain``."""
    return _env.from_string(NGINX_SITE_TEMPLATE).render(
        domain=domain,
        app_port=app_port or settings.app_port,
    )


def render_env_file(variables: dict[str, str]) -> str:
    """Render KEY="value" lines for a dotenv file."""
    return _env.from_string(ENV_FILE_TEMPLATE).render(variables=variables)
